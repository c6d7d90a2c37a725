# orders/serializers.py
from rest_framework import serializers


class IdentifySerializer(serializers.Serializer):
    fbclid = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=255)
    fbc = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=255)
    fbp = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=255)


class IdentifyResponseSerializer(serializers.Serializer):
    ok = serializers.BooleanField()
    fbc = serializers.CharField(allow_null=True)
    fbp = serializers.CharField(allow_null=True)
    fbclid = serializers.CharField(allow_null=True)


class OrderAccessSerializer(serializers.Serializer):
    ref = serializers.CharField(max_length=64)
    token = serializers.CharField(max_length=128)


class PhoneCollectSerializer(OrderAccessSerializer):
    phone = serializers.CharField(max_length=32)
    first_name = serializers.CharField(required=False, allow_blank=True, max_length=80)
    last_name = serializers.CharField(required=False, allow_blank=True, max_length=80)

    def validate_phone(self, value):
        value = value.strip()
        digits = "".join(ch for ch in value if ch.isdigit())
        if len(digits) < 7:
            raise serializers.ValidationError("Enter a valid phone number.")
        return value


class ProductSerializer(serializers.Serializer):
    id = serializers.CharField()
    name = serializers.CharField()


class OrderSummarySerializer(serializers.Serializer):
    reference = serializers.CharField()
    email = serializers.EmailField()
    first_name = serializers.CharField(allow_blank=True)
    amount = serializers.IntegerField(help_text="Minor units (kobo).")
    currency = serializers.CharField()


class ConfirmResponseSerializer(serializers.Serializer):
    ok = serializers.BooleanField()
    drive = serializers.CharField(allow_blank=True)
    whatsapp = serializers.CharField(allow_blank=True)
    product = ProductSerializer()
    order = OrderSummarySerializer()
    capi_sent = serializers.BooleanField()
    telegram_sent = serializers.BooleanField()


class ErrorSerializer(serializers.Serializer):
    ok = serializers.BooleanField(default=False)
    error = serializers.CharField()
    detail = serializers.CharField(required=False)
