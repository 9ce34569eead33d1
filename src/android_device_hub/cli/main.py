"""CLI entry point using Typer."""

from __future__ import annotations

import typer

from android_device_hub.cli.commands import avd, daemon, device, logcat

app = typer.Typer(
    name="android-device-hub",
    help="AVD/device selection and live logcat for Android development",
    no_args_is_help=True,
)


@app.command()
def version() -> None:
    """Show version information."""
    from android_device_hub import __version__

    typer.echo(f"android-device-hub v{__version__}")


app.add_typer(daemon.app, name="daemon")
app.add_typer(device.app, name="device")
app.add_typer(avd.app, name="avd")
app.add_typer(logcat.app, name="logcat")


if __name__ == "__main__":
    app()
