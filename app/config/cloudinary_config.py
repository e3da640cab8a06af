import cloudinary
import os

# Pega a variável de ambiente
cloudinary_url = os.getenv("CLOUDINARY_URL")

# Configura o cloudinary usando a URL (sem ela os uploads falham, mas a API sobe)
if cloudinary_url:
    cloudinary.config(
        secure=True,
        cloudinary_url=cloudinary_url
    )
