# Supabase tables: planners, liaisons
# This file documents the expected database schema
# Actual operations go through the PersistentStore in service.py

"""
Expected Supabase table structure (both tables share it):

planners - suppliers on an event organizer's team (requester's view):
liaisons - event organizers a supplier works with (supplier's view):
- id: uuid (primary key)
- user_id: uuid (not null) - owner of the roster
- name: text - counterpart display name
- email: text - counterpart email
- connection_type: text (nullable) - e.g. "supplier" on planners rows
- created_at: timestamp (default: now())

Rows are appended when a connection request is accepted. There is no unique
constraint; duplicates are avoided by a read-before-write check, which leaves
a race window between two concurrent acceptances. A unique index on
(user_id, email) closes it where the database allows it.
"""
