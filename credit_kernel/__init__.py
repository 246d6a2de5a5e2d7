"""
Credit Kernel - Certification Claim & Credit Allocation Engine

A transactional core for student certification claims with:
- Deterministic course credit computation
- Reservation-based credit consumption (no double-spend)
- Two-party (POC then Admin) approval state machine
- Immutable certificate-to-course credit mappings
"""

__version__ = "0.1.0"
