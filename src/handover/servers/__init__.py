"""DNS listeners and the shared request pipeline."""
