"""Entry points for BUILDLINE.

Entry points translate user input into commands, hand them to the message bus
obtained from `buildline.bootstrap`, and render the results.
"""
