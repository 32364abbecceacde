import importlib
import pkgutil


def include_routers(app, package_name, package_path):
    """Include the `router` of every module in the package."""
    for _, module_name, _ in pkgutil.iter_modules(package_path):
        module = importlib.import_module(f"realtime_chat.{package_name}.{module_name}")
        if hasattr(module, "router"):
            app.include_router(module.router)
