from rest_framework import generics, status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework_simplejwt.tokens import RefreshToken
from rest_framework_simplejwt.views import TokenObtainPairView

from .serializers import AccountSerializer, EmailLoginSerializer, SignUpSerializer


def _session_payload(account) -> dict:
    refresh = RefreshToken.for_user(account)
    return {
        "user": AccountSerializer(account).data,
        "access": str(refresh.access_token),
        "refresh": str(refresh),
    }


class SignUpView(generics.CreateAPIView):
    """Open an athlete account; the response already carries a token pair."""

    permission_classes = [AllowAny]
    serializer_class = SignUpSerializer

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        account = serializer.save()
        return Response(_session_payload(account), status=status.HTTP_201_CREATED)


class LoginView(TokenObtainPairView):
    serializer_class = EmailLoginSerializer


class CurrentAccountView(generics.RetrieveAPIView):
    """Read-only: the account and its booking role, used to pick the athlete or coach dashboard."""

    serializer_class = AccountSerializer

    def get_object(self):
        return self.request.user
