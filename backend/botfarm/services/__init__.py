"""
Services - oracle access and the analytic engines shared by the bots
"""
