"""
Fleet Kernel - fuel authorization core

Transactional core for fleet fuel authorization with:
- Work-ticket approval state machine (submit, approve/reject, complete)
- Prepaid bulk fuel account ledger with compare-and-set debits
- Atomic fuel transactions (record + debit + ticket completion)
- Typed errors and structured logging
"""

__version__ = "0.1.0"
