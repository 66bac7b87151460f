"""
Navigation menu storage.
"""
