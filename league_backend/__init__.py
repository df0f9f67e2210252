"""
League eligibility backend: player enrollments (habilitaciones) and transfers.
"""
