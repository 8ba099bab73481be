"""
Persistence services for the front desk (Supabase).
"""
