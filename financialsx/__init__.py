"""
FinancialsX

Accounting, banking, vendor, well and reporting services over legacy
Visual FoxPro DBF data files.
"""

__version__ = "1.0.0"
