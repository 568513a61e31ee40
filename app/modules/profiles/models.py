# Supabase table: profiles
# This file documents the expected database schema
# Actual operations go through the PersistentStore in service.py

"""
Expected Supabase table structure:

profiles:
- id: uuid (primary key, references auth.users.id)
- email: text (not null)
- full_name: text (nullable)
- company_name: text (nullable)
- user_type: text (not null) - values: admin, supplier
- service_type: text (nullable) - supplier category, e.g. "Hotels", "Food Trucks"
- description: text (nullable)
- promotions: jsonb (nullable) - {"title": "...", "description": "..."}
- address: text (nullable)
- phone: text (nullable)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

Rows are created on first sign-in/sign-up from auth user_metadata and edited
only by their owner. They are never deleted.
"""
