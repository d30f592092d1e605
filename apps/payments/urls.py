from django.urls import path  # type: ignore

from . import views

urlpatterns = [
    path("webhooks/card/", views.card_webhook, name="webhook-card"),
    path("webhooks/crypto/", views.crypto_webhook, name="webhook-crypto"),
    path("webhooks/telegram-stars/", views.telegram_stars_webhook, name="webhook-telegram-stars"),
    path("webhooks/promptpay/", views.promptpay_webhook, name="webhook-promptpay"),
    path("webhooks/regional/", views.regional_webhook, name="webhook-regional"),
    path(
        "promptpay/<uuid:intent_id>/confirm/",
        views.PromptPayConfirmView.as_view(),
        name="promptpay-confirm",
    ),
]
