"""Notifications app package.

Delivers booking messages by e-mail and through the Telegram Bot API.
Senders are called from job handlers, so transport errors propagate and
the job is retried.
"""
