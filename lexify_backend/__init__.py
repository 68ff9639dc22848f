"""
LEXIFY Backend - Request Lifecycle Service
==========================================

Backend for the LEXIFY legal-services marketplace:
1. Sweeping expired requests into hold/award/expiry states
2. Purchaser winner selection and deadline extension
3. Admin conflict-check decisions and contract formation

Page rendering, uploads and PDF generation live elsewhere.
"""

__version__ = "1.0.0"
