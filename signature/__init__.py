"""
Core Signature module.

Burns captured signatures into the source PDF (reportlab overlay merged with
pypdf), appends the audit summary page, decodes signature data URLs and
encrypts stored signature images.
"""
