"""Wire-level pieces of the control protocol: envelope, messages, errors, logging."""
