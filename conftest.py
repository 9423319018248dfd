pytest_plugins = ["slotmock.pytest_plugin"]
