# Supabase Auth
# This module uses Supabase's built-in authentication system
# No custom tables are required - Supabase Auth handles:
# - User registration (auth.users table)
# - User login and session management
# - JWT token generation and validation

"""
Supabase Auth provides:
- auth.sign_up() - Register new users (user_metadata seeds the profile)
- auth.sign_in_with_password() - Authenticate users
- auth.get_user() - Get current user from JWT token
- auth.admin.sign_out(jwt) - Revoke a user session by access token

user_metadata written at sign-up:
- user_type: "admin" | "supplier" (older accounts may carry "type")
- full_name, company_name (or companyname), service_type, address, phone

The role is always read back from user_metadata before a profiles row is trusted.
"""
