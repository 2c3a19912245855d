from django.contrib.auth import views as auth_views
from django.shortcuts import render

from .forms import SecureLoginForm


class SecureLoginView(auth_views.LoginView):
    """Login page with the rotating honeypot field."""
    form_class = SecureLoginForm
    template_name = 'registration/login.html'
    redirect_authenticated_user = True


def home(request):
    return render(request, 'loginguard/home.html')
