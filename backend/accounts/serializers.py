from django.contrib.auth import authenticate
from rest_framework import serializers
from .models import User


class UserBasicSerializer(serializers.ModelSerializer):
    """
    Lite user representation embedded in trips, packages and matches.
    """
    class Meta:
        model = User
        fields = ["id", "username", "role", "rating", "completed_deliveries"]
        read_only_fields = fields


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = [
            "id",
            "username",
            "email",
            "first_name",
            "last_name",
            "role",
            "phone_number",
            "rating",
            "completed_deliveries",
        ]
        read_only_fields = ["id", "username", "rating", "completed_deliveries"]


class LoginSerializer(serializers.Serializer):
    username = serializers.CharField()
    password = serializers.CharField(write_only=True)

    def validate(self, data):
        user = authenticate(username=data["username"], password=data["password"])
        if not user:
            raise serializers.ValidationError("Invalid username or password")
        return user


class RegisterSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, min_length=8)

    class Meta:
        model = User
        fields = ['username', 'password', 'email', 'role', 'phone_number', 'first_name', 'last_name']
        extra_kwargs = {
            'email': {'required': True},
            'phone_number': {'required': False},
        }

    def validate_email(self, value):
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError("Email already exists")
        return value

    def create(self, validated_data):
        password = validated_data.pop('password')
        return User.objects.create_user(password=password, **validated_data)
