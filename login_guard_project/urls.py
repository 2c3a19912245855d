from django.contrib import admin
from django.contrib.auth import views as auth_views
from django.urls import path
from django.views.generic import RedirectView
from loginguard.views import SecureLoginView, home

urlpatterns = [
    # The admin's own login form has no honeypot, so send it to the guarded one
    path('admin/login/', RedirectView.as_view(pattern_name='login', query_string=True, permanent=False)),
    path('admin/', admin.site.urls),
    path('accounts/login/', SecureLoginView.as_view(), name='login'),
    path('accounts/logout/', auth_views.LogoutView.as_view(), name='logout'),
    path('', home, name='home'),
]
