from django.urls import path

from . import views

app_name = "payments"

urlpatterns = [
    path("api/config", views.PublicConfigView.as_view(), name="config"),
    path("api/tx/init", views.InitializeTransactionView.as_view(), name="init"),
    path("api/tx/verify", views.VerifyTransactionView.as_view(), name="verify"),
    path("webhooks/paystack", views.paystack_webhook, name="paystack-webhook"),
]
