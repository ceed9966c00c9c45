"""
Futura Homes Back Office

Property-management back office covering reservations, contracts to sell,
installment schedules, walk-in payments, complaints, service requests,
role-based notifications and account profiles.
"""

__version__ = "1.0.0"
