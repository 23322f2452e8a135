"""BuzzRoom client: state projectors and the async network layer."""
