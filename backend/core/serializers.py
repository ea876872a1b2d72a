from rest_framework import serializers
from django.contrib.auth.password_validation import validate_password
from .models import User


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'name', 'phone', 'role', 'is_active', 'created_at', 'updated_at']
        read_only_fields = ['role', 'is_active', 'created_at', 'updated_at']


class UserSummarySerializer(serializers.ModelSerializer):
    """Public view of a user (sender/answerer/creator)"""
    class Meta:
        model = User
        fields = ['id', 'name']


class UserCreateSerializer(serializers.ModelSerializer):
    name = serializers.CharField(max_length=200)
    password = serializers.CharField(write_only=True, validators=[validate_password])
    password_confirm = serializers.CharField(write_only=True)
    role = serializers.ChoiceField(
        choices=[User.ROLE_CUSTOMER, User.ROLE_CAMPAIGN_CREATOR],
        default=User.ROLE_CUSTOMER
    )

    class Meta:
        model = User
        fields = ['email', 'name', 'password', 'password_confirm', 'phone', 'role']

    def validate_name(self, value):
        value = ' '.join(value.split())
        if not value:
            raise serializers.ValidationError("Name is required")
        return value

    def validate(self, attrs):
        if attrs['password'] != attrs['password_confirm']:
            raise serializers.ValidationError({"password": "Passwords don't match"})
        return attrs

    def create(self, validated_data):
        validated_data.pop('password_confirm')
        password = validated_data.pop('password')
        # Username is not used for login; keep it unique by deriving from email
        email = validated_data['email']
        validated_data.setdefault('username', email)
        user = User.objects.create(**validated_data, is_active=True)
        user.set_password(password)
        user.save()
        return user

