"""
Schema, rule catalog, validators and models shared by every pipeline phase.
"""
