"""Web Push notifications for offline users.

registry    subscription records per user/device
provider    VAPID-signed delivery via pywebpush
dispatcher  batch delivery with subscription-health bookkeeping
notifier    detached scheduling so pushes never delay or fail a request
"""
