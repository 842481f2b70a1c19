"""Domain services: slots, conflicts, bookings and synchronization."""
