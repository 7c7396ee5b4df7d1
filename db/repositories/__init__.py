"""Repository layer for the lead marketplace.

Plain async functions taking an AsyncSession first, one module per table
family:
- leads: create, get, find_recent_duplicate, count_from_ip_since, transition_status
- contractors: create, get, get_for_update, get_by_stripe_customer,
               list_matchable_in_zip, debit_credit, add_credit, update_fields
- assignments: create, get_by_lead, get_latest_by_tracking_number,
               set_tracking_number, count_since, counts_since, transition_status
- tracking_numbers: add, get_by_number, claim_available, release,
                    list_expired, count_by_status
- billing: get, get_for_pair, create_if_absent, update_record
- calls: upsert, get_by_sid, attach_recording
- credits: record, list_for_contractor, list_expired_deposits, mark_expired
- disputes: create, get, resolve
"""
