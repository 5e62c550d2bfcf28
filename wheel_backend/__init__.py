"""
Access layer for the wheel app's cloud state.

The application talks to `WheelBackend` (see `dependencies.get_backend`). It
reaches Firebase when the cloud backend is enabled and degrades to neutral
defaults in basic mode.
"""
