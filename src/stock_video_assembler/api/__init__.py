"""
HTTP surface for the stock video assembler.
"""
