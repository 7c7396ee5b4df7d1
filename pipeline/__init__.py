"""Lead scoring, contractor matching and call-billing pipeline."""
