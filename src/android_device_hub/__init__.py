"""Android device hub - AVD/device reconciliation and live logcat streaming."""

__version__ = "0.1.0"
