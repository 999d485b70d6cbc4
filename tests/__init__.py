"""
Clinic scheduling test suite
"""
