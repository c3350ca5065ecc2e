"""
Customers app.

This app owns the Customer record: the root entity that payments and
subscriptions hang off. It handles:
- Customer upsert on first contact (payment initiation, direct payment)
- Dashboard read (customer + effective subscription)

Related apps:
    - payments: Payment and Subscription reference Customer
"""
