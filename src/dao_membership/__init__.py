"""DAO membership registry: capacity-bounded, admin-controlled membership."""

__version__ = "0.1.0"
