"""Version of the appbatch distribution; the CLI and User-Agent read it here."""

__version__ = "0.1.0.dev0"
