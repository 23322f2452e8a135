"""BuzzRoom realtime session server (buzzer quiz + audience polling)."""
