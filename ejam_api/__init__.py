"""EJAM API: JSON data and HTML reports from the EJAM analysis engine."""
