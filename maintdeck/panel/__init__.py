"""Panel side of the controller: driver, key layout, pages, brightness and animation."""
