import logging

from rest_framework import status
from rest_framework.authtoken.models import Token
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.views import APIView

from accounts.serializers import (
    ChangePasswordSerializer,
    ForgotPasswordSerializer,
    LoginSerializer,
    RegisterSerializer,
    ResetPasswordSerializer,
)
from api.activity.utils import log_activity
from api.booking.email_service import Email
from api.exceptions import BadRequest
from api.user.models import User
from api.user.serializers import UserSerializer
from api.utils import success

logger = logging.getLogger(__name__)


class RegisterView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        token, _ = Token.objects.get_or_create(user=user)
        log_activity(request, "REGISTER", "user", user.pk, user.email)
        return success(
            {"user": UserSerializer(user).data, "token": token.key},
            message="Registration successful",
            status_code=status.HTTP_201_CREATED,
        )


class LoginView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        serializer = LoginSerializer(data=request.data, context={"request": request})
        if not serializer.is_valid():
            if "non_field_errors" in serializer.errors:
                email = str(request.data.get("email", ""))[:254]
                log_activity(request, "LOGIN_FAILED", "user", description=email)
                logger.warning("Failed login for %s", email)
            raise ValidationError(serializer.errors)
        user = serializer.validated_data["user"]
        token, _ = Token.objects.get_or_create(user=user)
        request.user = user
        log_activity(request, "LOGIN", "user", user.pk, user.email)
        return success({"user": UserSerializer(user).data, "token": token.key}, message="Login successful")


class LogoutView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        Token.objects.filter(user=request.user).delete()
        return success(message="Logged out successfully")


class MeView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return success(UserSerializer(request.user).data)

    def patch(self, request):
        serializer = UserSerializer(request.user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return success(serializer.data, message="Profile updated successfully")


class ChangePasswordView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = ChangePasswordSerializer(data=request.data, context={"request": request})
        serializer.is_valid(raise_exception=True)
        request.user.set_password(serializer.validated_data["new_password"])
        request.user.save(update_fields=["password"])
        return success(message="Password changed successfully")


class ForgotPasswordView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        serializer = ForgotPasswordSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = User.objects.filter(email__iexact=serializer.validated_data["email"]).first()
        if user is not None:
            token = user.issue_reset_token()
            Email().send_password_reset_email(user, token)
        else:
            logger.info("Password reset requested for unknown address")

        # Same answer either way so addresses can't be enumerated
        return success(message="If an account exists with this email, a password reset link has been sent")


class ResetPasswordView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        serializer = ResetPasswordSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        token = serializer.validated_data["token"]

        user = User.objects.filter(reset_token=token).first()
        if user is None or not user.reset_token_valid(token):
            raise BadRequest("Invalid or expired reset token")

        user.set_password(serializer.validated_data["password"])
        user.reset_token = None
        user.reset_token_expires_at = None
        user.save(update_fields=["password", "reset_token", "reset_token_expires_at"])
        Token.objects.filter(user=user).delete()
        return success(message="Password reset successfully")
