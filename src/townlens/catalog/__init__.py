"""Static reference data: municipality readings and the dataset catalog."""
