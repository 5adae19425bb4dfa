"""Pure helpers: GPX/CSV parsing, map geometry and WMS networking."""
