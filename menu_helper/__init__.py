"""
Menu Helper service.

Scan a photographed restaurant menu, enrich each dish with an image and a
short description, and recommend the dishes that best match the stored
preferences of the caller's device.
"""
