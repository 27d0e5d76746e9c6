"""webfram: declarative request binding, validation and schema generation."""

__version__ = "0.1.0"
