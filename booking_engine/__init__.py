"""Scheduling engine for service providers: availability, slots, bookings and notifications."""
