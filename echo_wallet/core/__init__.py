"""
Core functionality for Echo Wallet voice commands.

This package contains the main logic for:
- Transcript normalization (spoken numerals, token names, misheard keywords)
- Amount validation
- Intent parsing of normalized utterances
- Recipient resolution against the contact book
- The step-by-step transfer dialogue and the voice session that hosts it
- Configuration management
"""
