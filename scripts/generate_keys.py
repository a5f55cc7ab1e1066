"""
Script para generar las claves RSA (RS256) para JWT.
Con JWT_ALGORITHM=HS256 (por defecto) no hace falta; ejecutar una vez
antes de cambiar a RS256:

    python scripts/generate_keys.py
"""

from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa


def generate_rsa_keys(keys_dir: Path | None = None, overwrite: bool = False) -> bool:
    """Genera el par de claves en `keys_dir`. Retorna False si ya existían."""
    keys_dir = keys_dir or Path(__file__).parent.parent / "keys"
    keys_dir.mkdir(exist_ok=True)

    private_key_path = keys_dir / "private.pem"
    public_key_path = keys_dir / "public.pem"

    if private_key_path.exists() and not overwrite:
        return False

    # Clave privada RSA 2048
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048,
    )
    private_key_path.write_bytes(
        private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    public_key_path.write_bytes(
        private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    )
    return True


def main():
    keys_dir = Path(__file__).parent.parent / "keys"
    if not generate_rsa_keys(keys_dir):
        print(f"⚠️  Las claves ya existen en {keys_dir}")
        response = input("¿Desea regenerarlas? (s/N): ").strip().lower()
        if response != "s":
            print("Cancelado.")
            return
        generate_rsa_keys(keys_dir, overwrite=True)

    print(f"✅ Claves generadas en {keys_dir}")
    print("\n📌 Agrega a tu .env:")
    print("   JWT_ALGORITHM=RS256")
    print("   JWT_PRIVATE_KEY_PATH=./keys/private.pem")
    print("   JWT_PUBLIC_KEY_PATH=./keys/public.pem")


if __name__ == "__main__":
    main()
