from django.urls import path

from . import views

app_name = "orders"

urlpatterns = [
    path("api/visitor", views.VisitorView.as_view(), name="visitor"),
    path("api/identify", views.IdentifyView.as_view(), name="identify"),
    path("api/order/confirm", views.ConfirmOrderView.as_view(), name="confirm"),
    path("api/order/phone", views.CollectPhoneView.as_view(), name="phone"),
]
