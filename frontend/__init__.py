"""
docsmith web app - Flask frontend for the block editor, company briefs and
the salary calculator.
"""
