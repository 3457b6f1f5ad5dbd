"""
EditionLedger core: records, errors, canonical encoding, keys, config.
"""
