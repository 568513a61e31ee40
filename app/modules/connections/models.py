# Supabase table: connection_requests
# This file documents the expected database schema
# Actual operations go through the PersistentStore in service.py

"""
Expected Supabase table structure:
- id: uuid (primary key)
- requester_id: uuid (not null) - admin profile (event organizer)
- requester_name: text
- requester_email: text
- supplier_id: uuid (not null) - supplier profile
- supplier_name: text
- supplier_email: text
- status: text (not null, default: 'pending') - values: pending, accepted, declined
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

At most one active (pending or accepted) row per (requester_id, supplier_id).
This is enforced by a read-before-insert check, not a constraint, so two
simultaneous requests for the same pair can still both land. A partial unique
index on (requester_id, supplier_id) where status in ('pending', 'accepted')
closes that window where the database allows it.

Status moves pending -> accepted | declined and never leaves a terminal state.
"""
