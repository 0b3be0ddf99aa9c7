"""Request authentication helpers"""
