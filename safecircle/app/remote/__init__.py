"""
remote — Optional remote backend (auth, user locations, alert rows, contacts).
"""
