# Supabase table: notifications
# This file documents the expected database schema
# Actual operations go through the PersistentStore in service.py
#
# Realtime must be enabled for this table (supabase_realtime publication)
# so the bell receives INSERT events.

"""
Expected Supabase table structure:
- id: uuid (primary key)
- type: text (not null) - connection_request, connection_accepted, connection_declined,
  invitation, application_accepted, new_message, task_assignment
- content: text (nullable) - plain text, or a JSON object for connection_* types
- metadata: text (nullable) - JSON object, e.g. {"admin_id", "admin_name", "supplier_id", "supplier_name"}
- connection_request_id: uuid (nullable, references connection_requests.id)
- admin_user_id: uuid (nullable) - recipient when the recipient is an organizer
- supplier_email: text (nullable) - recipient when the recipient is a supplier (lower-cased)
- event_id: uuid (nullable); set on invitation and application_accepted rows
  written by the events service, which quotes the event name in content
- status: text (not null, default: 'unread') - values: unread, read
- created_at: timestamp (default: now())

Exactly one of admin_user_id / supplier_email addresses a row. Rows are only
updated to flip status to read and are never deleted.
"""
