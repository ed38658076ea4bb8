"""Rental vertical: book rentals with inventory reservation.

Pieces, leaf-first:
- ledger: atomic stock reserve/release (the only writer of available copies)
- workflow + rules: rental states, legal transitions, fines, authorization
- service: reservation coordination and the rental lifecycle
- reporting: read-only dashboard rollups
- router: FastAPI endpoints
"""
