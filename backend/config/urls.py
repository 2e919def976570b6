from django.contrib import admin
from django.urls import include, path
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenRefreshView

from accounts.api import CurrentAccountView, LoginView, SignUpView
from bookings.api import (
    BookingViewSet,
    CancelBookingView,
    CreateBookingCheckoutView,
    VerifyBookingPaymentView,
)

router = DefaultRouter()
router.register(r"bookings", BookingViewSet, basename="booking")

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/auth/register/", SignUpView.as_view(), name="auth-register"),
    path("api/auth/login/", LoginView.as_view(), name="auth-login"),
    path("api/auth/refresh/", TokenRefreshView.as_view(), name="auth-refresh"),
    path("api/auth/me/", CurrentAccountView.as_view(), name="auth-me"),
    path(
        "api/bookings/checkout/",
        CreateBookingCheckoutView.as_view(),
        name="booking-checkout",
    ),
    path(
        "api/bookings/verify-payment/",
        VerifyBookingPaymentView.as_view(),
        name="booking-verify-payment",
    ),
    path("api/bookings/cancel/", CancelBookingView.as_view(), name="booking-cancel"),
    path("api/", include(router.urls)),
]
