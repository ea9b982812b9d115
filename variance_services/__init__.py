"""
variance_services -- the I/O layer of rate variance reconciliation.

Document stores (in-memory and SQLAlchemy), the variance search adapters,
the record mutator, the closed-period adjustment procedure and the
ReconciliationService facade that wires them to the engines and batch
runners.
"""
