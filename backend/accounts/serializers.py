from django.contrib.auth import get_user_model, password_validation
from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

User = get_user_model()


class AccountSerializer(serializers.ModelSerializer):
    """The signed-in user as the booking screens need them: who they are and which side they book from."""

    role = serializers.CharField(read_only=True)
    coach_id = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ["id", "email", "first_name", "last_name", "display_name", "role", "coach_id"]
        read_only_fields = fields

    def get_coach_id(self, account):
        coach = account.coach
        return coach.pk if coach is not None else None


class SignUpSerializer(serializers.Serializer):
    """
    Open an athlete account keyed by email.

    Coach profiles are attached by staff afterwards, so every sign-up starts
    out as an athlete.
    """

    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, min_length=8, style={"input_type": "password"})
    first_name = serializers.CharField(max_length=150, required=False, allow_blank=True, default="")
    last_name = serializers.CharField(max_length=150, required=False, allow_blank=True, default="")
    display_name = serializers.CharField(max_length=120, required=False, allow_blank=True, default="")

    def validate_email(self, value: str) -> str:
        email = value.strip().lower()
        if User.objects.filter(email__iexact=email).exists():
            raise serializers.ValidationError("An account with this email already exists.")
        return email

    def validate_password(self, value: str) -> str:
        try:
            password_validation.validate_password(value)
        except DjangoValidationError as exc:
            raise serializers.ValidationError(list(exc.messages))
        return value

    def create(self, validated_data):
        display_name = validated_data["display_name"] or (
            f"{validated_data['first_name']} {validated_data['last_name']}".strip()
        )
        return User.objects.create_user(
            username=validated_data["email"],
            email=validated_data["email"],
            password=validated_data["password"],
            first_name=validated_data["first_name"],
            last_name=validated_data["last_name"],
            display_name=display_name or validated_data["email"],
        )


class EmailLoginSerializer(TokenObtainPairSerializer):
    """Exchange email + password for a JWT pair and the account summary."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        # Clients log in by email; the username stays an internal detail.
        del self.fields[self.username_field]
        self.fields["email"] = serializers.EmailField()

    def validate(self, attrs):
        email = attrs.pop("email").strip().lower()
        account = User.objects.filter(email__iexact=email).only("username").first()
        attrs[self.username_field] = account.username if account is not None else email
        data = super().validate(attrs)
        data["user"] = AccountSerializer(self.user).data
        return data
