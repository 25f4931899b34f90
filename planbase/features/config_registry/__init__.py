"""
Config Registry: layered configuration resolution.

Static defaults are overlaid by the CMS mirror (Strapi) and then by
Registry Store overrides saved in the database.
"""
