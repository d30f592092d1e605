"""Bookings: reservation holds and the booking lifecycle."""
