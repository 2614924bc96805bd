"""fk-seeder: populate relational schemas with constraint-respecting synthetic rows."""

__version__ = "0.1.0"

__all__ = ["__version__"]
