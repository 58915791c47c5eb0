"""
TradeDesk Realtime
Push-update dispatcher and hub for the trading dashboard
"""

__version__ = "1.0.0"
