"""
Workers - the bot runner and the behaviors that plug into it
"""
