"""Pure domain core: no database access, no clocks read implicitly."""
