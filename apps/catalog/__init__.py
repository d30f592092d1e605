"""Catalog app package.

A minimal read model of what can be booked (vessels and tours) and the
add-ons that can be attached to a booking. The settlement core only
talks to it through ``CatalogGateway``; browsing and admin CRUD of the
full catalog live elsewhere.
"""
