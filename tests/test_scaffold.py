import json

import pytest

from sitegen.core.errors import ProjectShapeError
from sitegen.core.scaffold import (
    DEFAULT_DEPENDENCIES,
    apply_provider_guards,
    ensure_required_files,
    ensure_tailwind_layer_directives,
    normalize_clerk_middleware,
    normalize_clerk_server_auth,
    normalize_scaffold,
    validate_project_structure,
    with_default_dependencies,
)
from sitegen.models import GeneratedFile


def _files(**by_path):
    return [GeneratedFile(path=p, content=c) for p, c in by_path.items()]


def _by_path(files):
    return {f.path: f.content for f in files}


LAYOUT = """import "./globals.css";
import { Inter } from "next/font/google";

export default function RootLayout({ children }: { children: React.ReactNode }) {
  return (
    <html lang="en">
      <body>{children}</body>
    </html>
  );
}
"""

CART = """"use client";
import { createContext, useContext } from "react";

const CartContext = createContext(null);

export function CartProvider({ children }) {
  return <CartContext.Provider value={null}>{children}</CartContext.Provider>;
}

export function useCart() {
  const ctx = useContext(CartContext);
  if (!ctx) throw new Error("useCart must be used within CartProvider");
  return ctx;
}
"""


def test_missing_baseline_files_are_synthesized():
    deps = with_default_dependencies({"zod": "^3.0.0"})
    out = _by_path(ensure_required_files([GeneratedFile(path="app/page.tsx", content="x")], deps))
    assert {"package.json", "tailwind.config.ts", "app/globals.css", "app/loading.tsx"} <= set(out)
    manifest = json.loads(out["package.json"])
    assert manifest["dependencies"]["zod"] == "^3.0.0"
    assert manifest["dependencies"]["next"] == DEFAULT_DEPENDENCIES["next"]
    assert "overflow-x: hidden" in out["app/globals.css"]


def test_existing_package_json_is_kept():
    files = _files(**{"package.json": '{"name": "mine"}'})
    out = _by_path(ensure_required_files(files, {}))
    assert out["package.json"] == '{"name": "mine"}'


def test_model_dependencies_override_defaults():
    assert with_default_dependencies({"next": "14.2.0"})["next"] == "14.2.0"
    assert with_default_dependencies({})["react"] == "^19.0.0"


def test_globals_css_gets_layer_directives_without_apply():
    css = """@layer base {
  body {
    @apply bg-white text-black;
    margin: 0;
  }
}
@layer utilities {
  .x { color: red; }
}
"""
    out = ensure_tailwind_layer_directives(css)
    assert out.startswith("@tailwind base;\n@tailwind utilities;\n")
    assert "@tailwind components;" not in out
    assert "@apply" not in out
    assert "margin: 0;" in out
    assert "overflow-x: hidden" in out


def test_provider_guard_wraps_layout_children():
    files = _files(**{"app/layout.tsx": LAYOUT, "components/cart.tsx": CART})
    layout = _by_path(apply_provider_guards(files))["app/layout.tsx"]
    assert 'import { CartProvider } from "@/components/cart";' in layout
    assert "<body><CartProvider>{children}</CartProvider></body>" in layout
    # import goes after the last existing import
    assert layout.index("next/font/google") < layout.index("CartProvider")


def test_provider_guard_skips_provider_already_used():
    wrapped = LAYOUT.replace("{children}", "<CartProvider>{children}</CartProvider>")
    files = _files(**{"app/layout.tsx": wrapped, "components/cart.tsx": CART})
    assert _by_path(apply_provider_guards(files))["app/layout.tsx"] == wrapped


def test_deprecated_auth_middleware_is_replaced():
    old = 'import { authMiddleware } from "@clerk/nextjs";\nexport default authMiddleware({ publicRoutes: ["/"] });\n'
    out = _by_path(normalize_clerk_middleware(_files(**{"middleware.ts": old})))["middleware.ts"]
    assert "authMiddleware" not in out
    assert "clerkMiddleware()" in out
    assert '"@clerk/nextjs/server"' in out


def test_protect_call_becomes_awaited_in_async_callback():
    src = (
        'import { clerkMiddleware } from "@clerk/nextjs/server";\n'
        "export default clerkMiddleware((auth, req) => {\n"
        "  auth().protect();\n"
        "});\n"
    )
    out = _by_path(normalize_clerk_middleware(_files(**{"src/middleware.ts": src})))["src/middleware.ts"]
    assert "clerkMiddleware(async (auth, req) =>" in out
    assert "await auth.protect();" in out


def test_server_files_await_auth_and_use_server_entry():
    src = (
        'import { auth } from "@clerk/nextjs";\n'
        "export default async function Page() {\n"
        "  const { userId } = auth();\n"
        "  return <div>{userId}</div>;\n"
        "}\n"
    )
    files = _files(**{"app/dashboard/page.tsx": src, "components/Widget.tsx": src})
    out = _by_path(normalize_clerk_server_auth(files))
    assert 'from "@clerk/nextjs/server"' in out["app/dashboard/page.tsx"]
    assert "const { userId } = await auth();" in out["app/dashboard/page.tsx"]
    # client components are left alone
    assert out["components/Widget.tsx"] == src


def test_normalize_scaffold_is_idempotent():
    css = "@layer components {\n  .btn { @apply px-4; }\n}\n"
    mw = 'import { clerkMiddleware } from "@clerk/nextjs/server";\nexport default clerkMiddleware((auth) => { auth().protect(); });\n'
    page = 'import { auth } from "@clerk/nextjs";\nexport default async function P() { const { userId } = auth(); return null; }\n'
    files = _files(**{
        "app/layout.tsx": LAYOUT,
        "components/cart.tsx": CART,
        "app/globals.css": css,
        "middleware.ts": mw,
        "app/account/page.tsx": page,
    })
    deps = with_default_dependencies({})
    once = normalize_scaffold(files, deps)
    twice = normalize_scaffold(once, deps)
    assert _by_path(once) == _by_path(twice)
    assert [f.path for f in once] == [f.path for f in twice]


def test_structure_validation_names_missing_files():
    with pytest.raises(ProjectShapeError) as exc:
        validate_project_structure(_files(**{"app/layout.tsx": LAYOUT}))
    assert "app/page.tsx" in str(exc.value)
    validate_project_structure(_files(**{
        "app/layout.tsx": "", "app/page.tsx": "", "app/loading.tsx": "", "app/globals.css": "",
    }))
