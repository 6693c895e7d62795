"""
URL routing for authentication endpoints.
"""
from django.urls import path
from apps.rbac.views_auth import (
    RegistrationView, LoginView, SwitchTeamView, MeView,
)

app_name = 'auth'

urlpatterns = [
    path('register', RegistrationView.as_view(), name='register'),
    path('login', LoginView.as_view(), name='login'),
    path('switch-team', SwitchTeamView.as_view(), name='switch-team'),
    path('me', MeView.as_view(), name='me'),
]
