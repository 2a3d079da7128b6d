"""
Settlement Kernel

Shared infrastructure for the payroll and commission settlement engine:
- Typed error taxonomy
- Structured JSON logging
- Tenant scope guard
- SQLAlchemy base classes, engine and ORM immutability guards
- Lifecycle state machine types
"""

__version__ = "0.1.0"
