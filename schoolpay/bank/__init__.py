"""Bank gateway integration: transports, envelope decoding, session client and the validation cascade."""
